# Runtime settings, overridable through the environment
import os

DUMP_PATH = os.getenv("WIKILINKS_DUMP_PATH", "enwiki-latest-pages-articles-multistream.xml")
DB_PATH = os.getenv("WIKILINKS_DB_PATH", "wikilinks.db")

PARTITIONS = int(os.getenv("WIKILINKS_PARTITIONS", "2"))
BATCH_SIZE = int(os.getenv("WIKILINKS_BATCH_SIZE", "1000"))
QUEUE_SIZE = int(os.getenv("WIKILINKS_QUEUE_SIZE", "128"))

# "1" turns invalid transitions and bad UTF-8 into fatal errors
STRICT = os.getenv("WIKILINKS_STRICT", "0") == "1"
