# -*- coding: utf-8 -*-

"""heap layout data structures

A Heap holds Chunks (parsed from the log) and Pages (produced by the
splitter), a Page holds fixed size Blocks, and every Block points at the
Chunk whose bytes it covers.
"""

PAGE_SIZE = 4096
PAGE_SIZE_MASK = PAGE_SIZE - 1
BLOCK_SIZE = 16
BLOCKS_PER_PAGE = PAGE_SIZE // BLOCK_SIZE

CHUNK_USED = 'used'
CHUNK_FREE = 'free'
CHUNK_FENCE = 'fence'
CHUNK_TOP = 'top'
CHUNK_TYPES = (CHUNK_USED, CHUNK_FREE, CHUNK_FENCE, CHUNK_TOP)


class HeapVizError(Exception):
    pass


class HeapLogFormatError(HeapVizError):
    pass


class HeapLogStructureError(HeapVizError):
    pass


class LayoutError(HeapVizError):
    pass


def page_addr_for(addr):
    return addr & ~PAGE_SIZE_MASK


def _check_unsigned(name, value):
    if value < 0:
        raise ValueError("{} has to be a non-negative number, not {}".format(name, value))


class Heap(object):
    def __init__(self, number, addr, size):
        _check_unsigned('number', number)
        _check_unsigned('addr', addr)
        _check_unsigned('size', size)
        self.number = number
        self.addr = addr
        self.size = size
        self.chunks = []
        self.pages = []
        # page base address -> True, False or None, until the splitter is done
        self.page_dirtiness = {}

    @property
    def end_addr(self):
        return self.addr + self.size

    def maybe_dirty_pages(self):
        return [page for page in self.pages if page.maybe_dirty]

    def clean_pages(self):
        return [page for page in self.pages if not page.maybe_dirty]

    def __str__(self):
        return "heap {0} addr {1:#x} size {2} chunks {3} pages {4}".format(
            self.number, self.addr, self.size, len(self.chunks), len(self.pages))


class Chunk(object):
    def __init__(self, heap_addr, addr, number, size, type, preview=None):
        _check_unsigned('addr', addr)
        _check_unsigned('number', number)
        _check_unsigned('size', size)
        if type not in CHUNK_TYPES:
            raise ValueError("unknown chunk type {!r}".format(type))
        self.heap_addr = heap_addr
        self.addr = addr
        self.number = number
        self.size = size
        self.type = type
        self.preview = preview or None

    @property
    def offset(self):
        return self.addr - self.heap_addr

    @property
    def end_addr(self):
        return self.addr + self.size

    @property
    def is_used(self):
        return self.type == CHUNK_USED

    def __str__(self):
        return "chunk {0} addr {1:#x} offset {2} size {3} type {4} preview {5!r}".format(
            self.number, self.addr, self.offset, self.size, self.type, self.preview)


class Page(object):
    def __init__(self, addr, dirty=None):
        _check_unsigned('addr', addr)
        if addr & PAGE_SIZE_MASK:
            raise ValueError("page addr {:#x} is not page aligned".format(addr))
        if dirty not in (True, False, None):
            raise ValueError("dirty has to be True, False or None, not {!r}".format(dirty))
        self.addr = addr
        self.dirty = dirty
        self.blocks = []

    @property
    def end_addr(self):
        return self.addr + PAGE_SIZE

    @property
    def maybe_dirty(self):
        # unknown counts as dirty
        return self.dirty is not False

    def __str__(self):
        return "page addr {0:#x} dirty {1} blocks {2}".format(
            self.addr, self.dirty, len(self.blocks))


class Block(object):
    def __init__(self, chunk, addr, number, end_of_chunk):
        _check_unsigned('addr', addr)
        _check_unsigned('number', number)
        self.chunk = chunk
        self.addr = addr
        self.number = number
        self.end_of_chunk = end_of_chunk

    @property
    def used(self):
        return self.chunk.is_used

    @property
    def end_addr(self):
        return self.addr + BLOCK_SIZE

    @property
    def offset(self):
        """Byte offset of this block inside its page."""
        return self.addr & PAGE_SIZE_MASK

    def __str__(self):
        return "block {0} addr {1:#x} chunk {2} end_of_chunk {3}".format(
            self.number, self.addr, self.chunk.number, self.end_of_chunk)
