import sys

from mmr_admin.cli import main

sys.exit(main())
