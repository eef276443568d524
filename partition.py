# Static byte-range partitioning of one dump across worker processes
import multiprocessing as mp
import queue
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional

from parser import PageParser, PageRecord, ScanStats, parse_pages
from tokenizer import corpus_size, is_compressed, open_corpus

QUEUE_SIZE = 128
_POLL_SECONDS = 1.0


@dataclass(frozen=True)
class Partition:
    index: int
    start: int
    end: Optional[int] = None  # None = read to end of file


@dataclass(frozen=True)
class PartitionDone:
    index: int
    stats: ScanStats


@dataclass(frozen=True)
class PartitionFailed:
    index: int
    error: str


class PartitionError(RuntimeError):
    def __init__(self, index: int, message: str):
        self.index = index
        self.message = message
        super().__init__(f"partition {index} failed: {message}")

    def __reduce__(self):
        return (self.__class__, (self.index, self.message))


def plan_partitions(total_size: int, count: int) -> List[Partition]:
    """Split [0, total_size) into `count` contiguous ranges of (nearly) equal length.

    Boundaries fall wherever the arithmetic puts them, usually mid-tag. Each
    scan skips ahead to the first <page> at or after its start and stops at
    the first <page> at or after its end, so every page has exactly one owner.
    """
    if count < 1:
        raise ValueError("partition count must be at least 1")
    bounds = [total_size * i // count for i in range(count)]
    partitions = []
    for i, start in enumerate(bounds):
        end = bounds[i + 1] if i + 1 < count else None
        partitions.append(Partition(i, start, end))
    return partitions


def plan_for(path, count: int) -> List[Partition]:
    if is_compressed(path) and count > 1:
        # bz2 streams can only be "seeked" by decompressing up to the offset
        print(f"Note: {path} is compressed, scanning it as a single partition.")
        count = 1
    return plan_partitions(corpus_size(path), count)


def scan_partition(
    path, partition: Partition, strict: bool = False, parser: Optional[PageParser] = None
) -> Iterator[PageRecord]:
    """Yield the records owned by one partition, using its own file handle."""
    if parser is None:
        parser = PageParser(end=partition.end, strict=strict)
    with open_corpus(path) as stream:
        if partition.start:
            stream.seek(partition.start)
        yield from parse_pages(stream, offset=partition.start, parser=parser)


def _partition_worker(path: str, partition: Partition, strict: bool, out_queue) -> None:
    parser = PageParser(end=partition.end, strict=strict)
    try:
        for record in scan_partition(path, partition, parser=parser):
            out_queue.put(record)  # blocks while the queue is full
    except Exception as exc:
        out_queue.put(PartitionFailed(partition.index, f"{exc.__class__.__name__}: {exc}"))
        return
    out_queue.put(PartitionDone(partition.index, parser.stats))


def _context():
    return mp.get_context("spawn")


def run_partitions(
    path,
    sink: Callable[[PageRecord], None],
    count: int = 2,
    strict: bool = False,
    queue_size: int = QUEUE_SIZE,
) -> Dict[int, ScanStats]:
    """Scan every partition of `path` in its own process and hand records to `sink`.

    Records arrive in document order per partition, interleaved across
    partitions. A failing partition does not stop the others; once all of them
    have finished, the first failure is raised as PartitionError. If `sink`
    raises, the workers are terminated and the error propagates.
    """
    partitions = plan_for(path, count)
    ctx = _context()
    records = ctx.Queue(maxsize=queue_size)
    processes = {}
    for partition in partitions:
        process = ctx.Process(
            target=_partition_worker,
            args=(str(path), partition, strict, records),
            name=f"partition-{partition.index}",
        )
        process.start()
        processes[partition.index] = process

    pending = set(processes)
    stats: Dict[int, ScanStats] = {}
    failures: List[PartitionFailed] = []

    def handle(message) -> None:
        if isinstance(message, PartitionDone):
            pending.discard(message.index)
            stats[message.index] = message.stats
            s = message.stats
            print(
                f"Partition {message.index} complete: {s.pages} pages, "
                f"{s.malformed} malformed fragments, {s.resyncs} resyncs, {s.skipped_pages} skipped"
            )
        elif isinstance(message, PartitionFailed):
            pending.discard(message.index)
            failures.append(message)
            print(f"Error: partition {message.index} failed: {message.error}")
        else:
            sink(message)

    try:
        while pending:
            try:
                message = records.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                exited = [index for index in sorted(pending) if not processes[index].is_alive()]
                if not exited:
                    continue
                # A worker that exited normally may still have its last
                # messages in the pipe, so drain before judging it
                while True:
                    try:
                        handle(records.get_nowait())
                    except queue.Empty:
                        break
                for index in exited:
                    if index in pending:
                        # Killed outright, it never got to report
                        pending.discard(index)
                        code = processes[index].exitcode
                        failures.append(PartitionFailed(index, f"worker exited with code {code} without reporting"))
                continue
            handle(message)
    except BaseException:
        for process in processes.values():
            if process.is_alive():
                process.terminate()
        raise
    finally:
        for process in processes.values():
            process.join()

    if failures:
        first = failures[0]
        raise PartitionError(first.index, first.error)
    return stats
