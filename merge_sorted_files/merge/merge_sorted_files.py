#!/usr/bin/env python3
"""
Merge Sorted Files - Lazy k-way merge of sorted text files

Merges multiple individually sorted files into a single sorted output, holding
only one line per input file in memory. Lines are compared as raw bytes, so
the inputs should be sorted the same way (e.g. ``LC_ALL=C sort``).

Each input is checked while it is merged: if a file turns out not to be
sorted, the merge stops with an error naming that file and a non-zero exit
status. Lines already written before the error stay in the output.

Usage Examples:
    # Merge two sorted files to stdout
    merge-sorted-files file1.txt file2.txt

    # Merge into an output file
    merge-sorted-files -o merged.txt sorted1.txt sorted2.txt sorted3.txt

    # Merge all files from directories (recursively)
    merge-sorted-files -o merged.txt /path/to/dir1 /path/to/dir2

    # Skip temporary files while scanning directories
    merge-sorted-files /data/runs/ --exclude '*.tmp' -v

    # Pipe to other processes
    merge-sorted-files sorted*.log | gzip > merged.log.gz
    merge-sorted-files run-*.txt | head -n 1000 > top1000.txt

Exit Status:
    0    All inputs merged
    1    I/O error, unsorted input, or no input files after exclusions
    130  Interrupted
    141  Output closed early (e.g. piped into head)
"""

import argparse
import fnmatch
import os
import sys

from .heap import DEFAULT_BUFFER_SIZE, Merger, MergeError


def silence_stdout():
    """Point stdout at devnull so the final flush at exit cannot fail again."""
    try:
        fd = sys.stdout.fileno()
    except (AttributeError, ValueError):
        return
    devnull = os.open(os.devnull, os.O_WRONLY)
    os.dup2(devnull, fd)


def log_progress(message, verbose=False):
    """Write a progress message to stderr if verbose is enabled."""
    if verbose:
        print(message, file=sys.stderr)


def should_exclude(filename, exclude_patterns):
    """
    Check a file's basename against glob-style exclusion patterns.

    Returns:
        tuple: (True, pattern) for the first matching pattern, else (False, None)
    """
    if not exclude_patterns:
        return False, None

    basename = os.path.basename(filename)
    for pattern in exclude_patterns:
        if fnmatch.fnmatch(basename, pattern):
            return True, pattern
    return False, None


def get_all_files(paths, exclude_patterns=None, verbose=False):
    """
    Expand a list of files and directories into the files to merge.

    Directories are walked recursively in sorted order so the same tree
    always produces the same file list. Paths that are neither a file nor a
    directory are yielded unchanged, so opening them reports the error.

    Args:
        paths: File or directory paths
        exclude_patterns: Glob patterns matched against basenames (optional)
        verbose: Log discovery to stderr (optional)

    Yields:
        str: Path of each file to merge
    """
    for path in paths:
        if os.path.isdir(path):
            log_progress(f"[DISCOVER] Scanning directory: {path}", verbose)
            for root, dirs, files in os.walk(path):
                dirs.sort()
                for name in sorted(files):
                    full_path = os.path.join(root, name)
                    excluded, pattern = should_exclude(full_path, exclude_patterns)
                    if excluded:
                        log_progress(f"[EXCLUDE] {full_path} (matches: {pattern})", verbose)
                    else:
                        log_progress(f"[INCLUDE] {full_path}", verbose)
                        yield full_path
        else:
            excluded, pattern = should_exclude(path, exclude_patterns)
            if excluded:
                log_progress(f"[EXCLUDE] {path} (matches: {pattern})", verbose)
            else:
                log_progress(f"[INCLUDE] {path}", verbose)
                yield path


def merge_sorted_files(files, output_file="-", buffer_size=DEFAULT_BUFFER_SIZE, verbose=False):
    """
    Merge sorted files into one sorted output.

    Every file is registered under its own path, so errors name the file
    that caused them. All input files are closed before returning, also
    when the merge fails.

    Args:
        files: Paths of sorted input files
        output_file: Output path, or '-' for stdout (default)
        buffer_size: Read/write buffer size in bytes (default: 1MB)
        verbose: Log progress to stderr

    Returns:
        int: Number of lines written

    Raises:
        OutOfOrderError: If an input file is not sorted
        OSError: If a file cannot be opened, read or written
    """
    log_progress(f"[MERGE] Starting merge of {len(files)} files...", verbose)

    with Merger(buffer_size=buffer_size) as merger:
        for path in files:
            first_line = merger.register(path, open(path, "rb", buffering=buffer_size))
            if first_line is None:
                log_progress(f"[MERGE] Skipping empty file: {path}", verbose)

        if output_file == "-":
            lines_written = merger.emit_all(sys.stdout.buffer)
            sys.stdout.buffer.flush()
        else:
            with open(output_file, "wb", buffering=buffer_size) as out:
                lines_written = merger.emit_all(out)

    log_progress(f"[MERGE] Complete: {lines_written} lines written", verbose)
    return lines_written


def main(argv=None):
    """Main entry point for command-line usage."""
    parser = argparse.ArgumentParser(
        description="Merge N sorted files or directories into one sorted stream.",
        epilog="Examples:\n"
        "  merge-sorted-files file1.txt file2.txt\n"
        "  merge-sorted-files -o merged.txt /data/runs/ --exclude '*.tmp' -v\n"
        "  merge-sorted-files sorted*.log | gzip > merged.log.gz",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("paths", nargs="+", help="Sorted input files or directories")
    parser.add_argument(
        "-o",
        "--output",
        default="-",
        help="Output file, or - for stdout (default: stdout)",
    )
    parser.add_argument(
        "--exclude",
        action="append",
        dest="exclude_patterns",
        metavar="PATTERN",
        help="Exclude files matching glob pattern (can be used multiple times)",
    )
    parser.add_argument(
        "--buffer-size",
        type=int,
        default=DEFAULT_BUFFER_SIZE,
        metavar="BYTES",
        help="I/O buffer size in bytes (default: 1MB)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output to stderr (progress, exclusions, statistics)",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress all stderr output (overrides --verbose)",
    )
    args = parser.parse_args(argv)

    verbose = args.verbose and not args.quiet

    files = list(get_all_files(args.paths, args.exclude_patterns, verbose))
    if not files:
        if not args.quiet:
            print("Error: No files to merge after applying exclusions", file=sys.stderr)
        sys.exit(1)

    try:
        merge_sorted_files(files, args.output, buffer_size=args.buffer_size, verbose=verbose)
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        sys.exit(130)
    except BrokenPipeError:
        silence_stdout()
        sys.exit(141)
    except (MergeError, OSError) as e:
        if not args.quiet:
            print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
