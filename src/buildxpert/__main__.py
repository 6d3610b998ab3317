from buildxpert.cli.app import main

main()
