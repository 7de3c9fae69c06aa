from scrollcaptureio import main

if __name__ == "__main__":
    main()
