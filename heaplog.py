# -*- coding: utf-8 -*-

"""heap chunk log parser

Reads the text written by the ptmalloc heap dumper and turns it into a
list of heapmodel.Heap objects. Three kinds of lines are recognized,
everything else in the log is skipped:

    Heap  0x7f2a1c000000 size     135168 bytes:
    Pages in use for 0x7f2a1c000000-0x7f2a1c021000: 110000000...
    chunk 0x7f2a1c0008c0 size       1040 bytes          hello world.0000
    chunk 0x7f2a1c000cd0 size        160 bytes [free]
    chunk 0x7f2a1c000d70 size     131728 bytes (top)
"""

import io
import operator
import re

from heapmodel import (
    CHUNK_FENCE, CHUNK_FREE, CHUNK_TOP, CHUNK_USED, PAGE_SIZE,
    Chunk, Heap, HeapLogFormatError, HeapLogStructureError,
)

heap_start_re = re.compile(r'^heap +(?P<addr>\S+) +size +(?P<size>\S+)', re.IGNORECASE)
chunk_re = re.compile(r'^chunk +(?P<addr>\S+) +size +(?P<size>\S+) +bytes'
                      r'(?: (?P<marker>\(top\)|\(fence\)|\[free\]))? *(?P<preview>.*)$')
pages_in_use_re = re.compile(r'^Pages in use for 0x(?P<start>[^-\s]+)-0x(?P<end>[^:\s]+):'
                             r' *(?P<usage>\S*)')

_hex_re = re.compile(r'^(0x)?[0-9a-f]+$', re.IGNORECASE)
_dec_re = re.compile(r'^[0-9]+$')

page_usage_states = {
    '1': True,
    '0': False,
}


def chunk_type_for_marker(marker):
    marker = marker or ''
    if 'top' in marker:
        return CHUNK_TOP
    elif 'fence' in marker:
        return CHUNK_FENCE
    elif 'free' in marker:
        return CHUNK_FREE
    else:
        return CHUNK_USED


class HeapLogParser(object):
    """Line by line builder for the heap list.

    The heap that chunk and page lines belong to is tracked in an explicit
    cursor, which is only set by a heap start line.
    """

    def __init__(self, verbose=0):
        self.verbose = verbose
        self.heaps = []
        self._heap = None
        self._lineno = 0
        self._finished = False

    def parse(self, lines):
        for line in lines:
            self.feed(line)
        return self.finish()

    def feed(self, line):
        if self._finished is True:
            raise Exception("Cannot feed more lines after the parser has finished!")
        self._lineno += 1
        line = line.strip()

        match = heap_start_re.match(line)
        if match is not None:
            self._heap_start(match)
            return
        match = chunk_re.match(line)
        if match is not None:
            self._chunk(match)
            return
        match = pages_in_use_re.match(line)
        if match is not None:
            self._pages_in_use(match)

    def finish(self):
        if self._finished is False:
            # only the containers are reordered, number stays parse order
            by_addr = operator.attrgetter('addr')
            self.heaps.sort(key=by_addr)
            for heap in self.heaps:
                heap.chunks.sort(key=by_addr)
            self._finished = True
        return self.heaps

    def _hex(self, token, what):
        if _hex_re.match(token) is None:
            raise HeapLogFormatError("line {0}: malformed hexadecimal {1} {2!r}".format(
                self._lineno, what, token))
        return int(token, 16)

    def _dec(self, token, what):
        if _dec_re.match(token) is None:
            raise HeapLogFormatError("line {0}: malformed decimal {1} {2!r}".format(
                self._lineno, what, token))
        return int(token, 10)

    def _current_heap(self, what):
        if self._heap is None:
            raise HeapLogStructureError("line {0}: {1} line before any heap start line".format(
                self._lineno, what))
        return self._heap

    def _heap_start(self, match):
        addr = self._hex(match.group('addr'), 'heap address')
        size = self._dec(match.group('size'), 'heap size')
        self._heap = Heap(len(self.heaps), addr, size)
        self.heaps.append(self._heap)
        if self.verbose >= 1:
            print(self._heap)

    def _chunk(self, match):
        heap = self._current_heap('chunk')
        chunk = Chunk(
            heap.addr,
            self._hex(match.group('addr'), 'chunk address'),
            len(heap.chunks),
            self._dec(match.group('size'), 'chunk size'),
            chunk_type_for_marker(match.group('marker')),
            match.group('preview') or None,
        )
        heap.chunks.append(chunk)
        if self.verbose >= 3:
            print("    {}".format(chunk))

    def _pages_in_use(self, match):
        heap = self._current_heap('pages in use')
        start_addr = self._hex(match.group('start'), 'page range start')
        end_addr = self._hex(match.group('end'), 'page range end')
        usage = match.group('usage')
        for addr in range(start_addr, end_addr, PAGE_SIZE):
            index = (addr - start_addr) // PAGE_SIZE
            state = usage[index] if index < len(usage) else None
            heap.page_dirtiness[addr] = page_usage_states.get(state)
        if self.verbose >= 2:
            print("    pages in use {0:#x}-{1:#x} {2} pages".format(
                start_addr, end_addr, len(heap.page_dirtiness)))


def parse_lines(lines, verbose=0):
    return HeapLogParser(verbose).parse(lines)


def parse_file(path, verbose=0):
    with io.open(path, 'r', encoding='utf-8') as f:
        return parse_lines(f, verbose)
