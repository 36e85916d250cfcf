import sys

from banksync.cli import main

sys.exit(main())
