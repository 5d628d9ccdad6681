from outage_monitor.main import main

raise SystemExit(main())
