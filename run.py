# Command-line launcher
# Usage: python run.py path/to/assessmentResult.json [--output-directory DIR] [--out archive.zip]

import sys

from study_uploader.cli import main

if __name__ == "__main__":
    sys.exit(main())
