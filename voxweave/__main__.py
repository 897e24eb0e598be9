from voxweave.cli import main

main()
