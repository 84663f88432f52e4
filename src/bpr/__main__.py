from bpr.cli import main

raise SystemExit(main())
