import sys

from kdknn.main import main

sys.exit(main())
