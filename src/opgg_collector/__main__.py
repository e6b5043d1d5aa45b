import sys

from opgg_collector.cli import main

sys.exit(main())
