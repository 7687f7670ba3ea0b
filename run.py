#!/usr/bin/env python3
"""
Direct-to-S3 multipart uploader

Run this script to upload files straight to S3-compatible storage using
temporary credentials from config.json or PROFILE_* environment variables.

Usage:
    python run.py upload big.iso -b my-bucket          # Use config.json
    python run.py -c custom.json upload big.iso        # Use custom config
    python run.py -p minio upload big.iso -k isos/big.iso
    python run.py upload big.iso -q -j result.json     # Summary + JSON result
    python run.py abort -b my-bucket -k big.iso -u UPLOAD_ID
    python run.py hash big.iso
"""

import sys
from s3direct.cli import main

if __name__ == "__main__":
    sys.exit(main())
