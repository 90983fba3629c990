import sys

from ldap_exporter.cli import main

sys.exit(main())
