import sys

from dax_udf_sync.cli import main

sys.exit(main())
