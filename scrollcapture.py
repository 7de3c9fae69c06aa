#!/usr/bin/python3

# Entry-point for running from the CLI when not installed via Pip, Pip will handle the console_scripts entry_points's from setup.py
# It's recommended to use `pip3 install scrollcapture.io` and start with `scrollcapture.io` instead, it will be linked to your global path.

import sys

from scrollcaptureio import main

if __name__ == '__main__':
    try:
        main()
    except KeyboardInterrupt:
        print("Exited - CTRL+C")
        sys.exit(1)
