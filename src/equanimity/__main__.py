from equanimity.cli import main

raise SystemExit(main())
