"""Package entry point for ``python -m transcript_merger``.

WHY: Users run the merger as ``python -m transcript_merger part_*.srt``.
Python's ``-m`` flag looks for ``__main__.py`` inside the package and
executes it.
"""

from transcript_merger.cli import main

if __name__ == "__main__":
    main()
