import sys

from obstacle_detection.cli import main

sys.exit(main())
