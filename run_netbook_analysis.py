#!/usr/bin/env python
"""
Run Netbook Analysis
This script runs the differential-score pipeline with the project defaults
"""

import sys

from netbooks.pipeline import main

if __name__ == "__main__":
    # Pass the command line arguments through to the pipeline
    main(sys.argv[1:])
