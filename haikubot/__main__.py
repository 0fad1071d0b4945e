import sys

from haikubot.cli import main

sys.exit(main())
