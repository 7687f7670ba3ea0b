import sys

from s3direct.cli import main

sys.exit(main())
