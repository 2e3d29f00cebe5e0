import sys

from audit2csv.cli import main


sys.exit(main())
