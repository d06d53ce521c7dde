from scout.pipeline import main

raise SystemExit(main())
