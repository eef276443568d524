# JSONL export of page titles and links, one worker per partition
import json
import multiprocessing
import os
import tempfile
from pathlib import Path

from extractor import split_link
from parser import PageParser
from partition import plan_for, scan_partition


def record_to_json(record, split_labels=False):
    if split_labels:
        links = []
        for raw in record.links:
            target, label = split_link(raw)
            links.append({'target': target, 'label': label})
    else:
        links = list(record.links)
    return {'title': record.title, 'links': links}


def export_partition(dump_path, partition, output_path, strict=False, split_labels=False):
    """Write one partition's records to output_path. Returns the number of pages written."""
    parser = PageParser(end=partition.end, strict=strict)
    with open(output_path, 'w', encoding='utf-8') as out_file:
        for record in scan_partition(dump_path, partition, parser=parser):
            out_file.write(json.dumps(record_to_json(record, split_labels)) + '\n')
    s = parser.stats
    print(f"Partition {partition.index} wrote {s.pages} pages to {output_path} "
          f"({s.malformed} malformed fragments, {s.resyncs} resyncs, {s.skipped_pages} skipped)")
    return s.pages


def combine_files(source_files, destination_file):
    """Concatenates multiple files into a single destination file."""
    print(f"Combining {len(source_files)} files into {destination_file}...")
    with open(destination_file, 'wb') as outfile:
        for filepath in source_files:
            with open(filepath, 'rb') as infile:
                while True:
                    block = infile.read(1024 * 1024)
                    if not block:
                        break
                    outfile.write(block)

            os.remove(filepath)  # remove the partial file after it has been merged


def export_jsonl(dump_path, output_path, partitions=2, strict=False, split_labels=False):
    """Export every page of the dump as {"title", "links"} JSON lines.

    Partitions run in parallel, each into its own temporary file; the files
    are then concatenated in partition order, so the output follows document
    order. Returns the total number of pages written.
    """
    plan = plan_for(dump_path, partitions)
    output_path = Path(output_path)
    with tempfile.TemporaryDirectory(dir=output_path.parent) as temp_dir:
        tasks = []
        for partition in plan:
            temp_path = Path(temp_dir) / f"partition-{partition.index}.jsonl"
            tasks.append((str(dump_path), partition, str(temp_path), strict, split_labels))

        print(f"Starting {len(tasks)} partition scans...")
        ctx = multiprocessing.get_context('spawn')
        with ctx.Pool(processes=len(tasks)) as pool:
            counts = pool.starmap(export_partition, tasks)

        combine_files([task[2] for task in tasks], output_path)
    return sum(counts)
