"""
Stream Loader App - Incremental Partner Feed Sync

Responsibilities:
- Scheduled execution (cron via APScheduler) or a single RUN_ONCE pass
- Resumable pagination over the partner action streams (lastId cursor
  persisted after every fully applied page)
- Decode publish/unpublish and recommend/unrecommend actions
- Apply them idempotently to the article store (files or SQLite)
- Publish Redis Pub/Sub events after each finished feed run

Output:
- <STORE_DIR>/<feed>/<articleId>.xml (or rows in the SQLite records table)
- <STATE_DIR>/<feed>-<install>-last-id.json
- Redis event: channel=streams.sync, payload={type, feed, cursor, ...}
"""
