# Main orchestration script: scan a Wikipedia dump and store or export its pages
import argparse
import sys
import time

import config
from exporter import export_jsonl
from partition import PartitionError, run_partitions
from parser import InvalidStateTransition, PageEncodingError
from writer import BatchWriter, StoreError, open_store


def ingest(dump_path, db_path, partitions=config.PARTITIONS, batch_size=config.BATCH_SIZE,
           queue_size=config.QUEUE_SIZE, strict=config.STRICT, reset=False, flush_partial=True):
    """Scan the dump in parallel and upsert every page title into the database.

    Returns the number of records handed to the store (duplicates included).
    """
    with open_store(db_path, reset=reset) as store:
        with BatchWriter(store, batch_size=batch_size, flush_partial=flush_partial) as writer:
            run_partitions(dump_path, writer.add, count=partitions, strict=strict, queue_size=queue_size)
        print(f"Wrote {writer.written} titles in {writer.flushes} batches; {store.count()} distinct titles stored.")
        return writer.written


def main(argv=None):
    parser = argparse.ArgumentParser(description="Extract page titles and [[links]] from a Wikipedia XML dump.")
    parser.add_argument("--dump", default=config.DUMP_PATH,
                        help="Path to the .xml (or .xml.bz2) dump (default: WIKILINKS_DUMP_PATH).")
    parser.add_argument("--db", default=config.DB_PATH,
                        help="SQLite database for page titles (default: WIKILINKS_DB_PATH).")
    parser.add_argument("--jsonl", default=None,
                        help="Write {title, links} JSON lines to this file instead of the database.")
    parser.add_argument("--partitions", type=int, default=config.PARTITIONS,
                        help="Number of parallel scans over the dump (default: 2).")
    parser.add_argument("--batch-size", type=int, default=config.BATCH_SIZE,
                        help="Titles per bulk insert (default: 1000).")
    parser.add_argument("--split-labels", action="store_true",
                        help="In JSONL output, split each link into target and label.")
    parser.add_argument("--strict", action="store_true", default=config.STRICT,
                        help="Abort a partition on unexpected tags or invalid UTF-8 instead of skipping.")
    parser.add_argument("--reset", action="store_true",
                        help="Drop the pages table before ingesting.")
    args = parser.parse_args(argv)

    start_time = time.time()
    print(f"Scanning {args.dump} with {args.partitions} partitions...")
    try:
        if args.jsonl:
            count = export_jsonl(args.dump, args.jsonl, partitions=args.partitions,
                                 strict=args.strict, split_labels=args.split_labels)
            print(f"Exported {count} pages to {args.jsonl}")
        else:
            ingest(args.dump, args.db, partitions=args.partitions, batch_size=args.batch_size,
                   strict=args.strict, reset=args.reset)
    except (PartitionError, StoreError, InvalidStateTransition, PageEncodingError, OSError) as e:
        print(f"Error: {e}")
        return 1

    print(f"✔ Finished in {time.time() - start_time:.2f} seconds.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
