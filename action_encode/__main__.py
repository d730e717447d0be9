import sys

from action_encode.cli import main

sys.exit(main())
