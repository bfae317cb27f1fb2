from image_to_musicxml.cli import main

main()
