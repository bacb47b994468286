import sys

from tribora.cli import main

sys.exit(main())
