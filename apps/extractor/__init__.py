"""
Extractor App - Incremental Dispensing Sync

Responsibilities:
- Scheduled execution (cron via APScheduler) or a single RUN_ONCE run
- List every store known to the upstream ICAD API
- Resume each store after the highest ID already in the sink (checkpoint)
- Page through new dispensing events, normalize them and insert them into SQLite
- Skip stores without a checkpoint; abort a store on malformed data, the run on transport failure
- Publish a Redis event with the run summary (optional)

Output:
- SQLite table DB_TABLE_DISPENSING (one row per dispensing event)
- Redis event: channel=sync.dispensing, payload={type, ts, summary, error}
"""
