import sys

from lynx_fm.cli import main

sys.exit(main())
