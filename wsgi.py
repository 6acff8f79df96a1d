"""
WSGI entry point — serve `wsgi:app` with any WSGI server.

Starts the CRM scheduler thread when SCHEDULER_ENABLED is set. Run a single
worker with the scheduler on; the default in-memory run markers are not shared
between processes (use SCHEDULER_MARKER_BACKEND=redis otherwise).
"""
from leadflow import create_app
from leadflow.config import SCHEDULER_ENABLED

app = create_app()

if SCHEDULER_ENABLED:
    from leadflow.extensions import allocator
    from leadflow.automation.scheduler import Scheduler, build_marker_store

    scheduler = Scheduler(markers=build_marker_store(), allocator=allocator)
    scheduler.start()

if __name__ == '__main__':
    import os
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', 8080)))
