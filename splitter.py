# -*- coding: utf-8 -*-

"""split heap chunks into pages and blocks

The chunk range of a heap, from the first chunk up to the end of the last
one, is walked once in steps of BLOCK_SIZE. Each step becomes a Block that
points at the chunk the cursor is in, and a new Page is started whenever
the cursor enters the next PAGE_SIZE aligned region.
"""

from heapmodel import BLOCK_SIZE, Block, LayoutError, Page, page_addr_for


def split_heap(heap, verbose=0):
    chunks = heap.chunks
    if len(chunks) == 0:
        raise LayoutError("heap {0} at {1:#x} has no chunks".format(heap.number, heap.addr))
    dirtiness = heap.page_dirtiness or {}
    last_chunk_end_addr = chunks[-1].end_addr

    chunk_index = 0
    chunk = chunks[chunk_index]
    addr = chunk.addr
    if last_chunk_end_addr < addr:
        raise LayoutError(
            "heap {0} at {1:#x}: chunk range {2:#x}-{3:#x} is inverted, chunks are not "
            "sorted by address".format(heap.number, heap.addr, addr, last_chunk_end_addr))
    pages = []
    while addr < last_chunk_end_addr:
        page_addr = page_addr_for(addr)
        # missing from the map means unknown, not clean
        page = Page(page_addr, dirtiness.get(page_addr))
        pages.append(page)

        page_or_last_chunk_end_addr = min(page.end_addr, last_chunk_end_addr)
        while addr < page_or_last_chunk_end_addr:
            if chunk is None:
                raise LayoutError(
                    "heap {0} at {1:#x}: ran out of chunks at {2:#x}, chunk range ends at "
                    "{3:#x}".format(heap.number, heap.addr, addr, last_chunk_end_addr))
            block = Block(chunk, addr, len(page.blocks),
                          addr + BLOCK_SIZE >= chunk.end_addr)
            page.blocks.append(block)

            addr += BLOCK_SIZE
            if block.end_of_chunk:
                chunk_index += 1
                chunk = chunks[chunk_index] if chunk_index < len(chunks) else None

        if verbose >= 2:
            print("    {}".format(page))

    heap.pages = pages
    heap.page_dirtiness = None
    return heap


class ChunkSplitter(object):
    def __init__(self, heaps, verbose=0):
        self.heaps = heaps
        self.verbose = verbose

    def perform(self):
        for heap in self.heaps:
            split_heap(heap, self.verbose)
            if self.verbose >= 1:
                print(heap)
        return self.heaps
