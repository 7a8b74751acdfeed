from latencymap.cli import main

main()
