import sys

from metricsd.main import main

sys.exit(main())
