from edgelens.pipeline import main

raise SystemExit(main())
