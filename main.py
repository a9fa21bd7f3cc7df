#!/usr/bin/env python3
"""
Entry point for the Document Scanner CLI.

Usage:
    python main.py photo.jpg                          # Straight to threshold + PDF
    python main.py photo.jpg --interactive            # Pick corners and crop in a window
    python main.py photo.jpg --corners "10,12;980,30;1000,1400;5,1390" -o page.pdf
    python main.py photo.jpg --crop 50,50,800,1100 --block-size 15 -C 4 -o page.png
"""

from pagescan.cli import main

if __name__ == "__main__":
    main()
