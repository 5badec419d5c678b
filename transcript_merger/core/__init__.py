"""Core parsing, ordering and assembly modules.

WHY: The core package contains the stable heart of the merger: the IR
dataclasses, the timestamp grammars, the ordering rules and the timeline
assembly. These are consumed by all formatters and the CLI.

HOW: ir.py defines the data structures, ingest.py and grammar.py turn
files into SourceFiles, sequence.py orders them, durations.py and
offsets.py place them on the timeline, assembler.py builds and repairs
the MergedDocument and engine.py runs the whole pipeline.

RULES:
- IR dataclasses are the contract; change with care
- Assembly logic is grammar-agnostic; no formatter-specific logic here
"""
