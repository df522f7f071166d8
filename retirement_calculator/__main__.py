import sys

from retirement_calculator.main import main

sys.exit(main())
