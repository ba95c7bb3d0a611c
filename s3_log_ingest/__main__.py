import sys

from .log_ingestor import main

sys.exit(main())
