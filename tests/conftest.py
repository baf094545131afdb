"""
Shared helpers for the multi-process tests.

``launch(worker, world_size, *args)`` spawns ``world_size`` Gloo processes,
each running ``worker(rank, world_size, *args)``. A failing assertion in any
worker fails the test. Workers must be module-level functions so they can be
pickled into the child processes.
"""

import os
import sys
import uuid
from datetime import timedelta

import pytest
import torch.distributed as dist
from torch.multiprocessing import spawn

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def _bootstrap(rank, world_size, init_method, worker, args):
    dist.init_process_group(
        'gloo',
        init_method=init_method,
        rank=rank,
        world_size=world_size,
        timeout=timedelta(seconds=120)
    )
    try:
        worker(rank, world_size, *args)
    finally:
        dist.destroy_process_group()


@pytest.fixture
def launch(tmp_path):
    def _launch(worker, world_size, *args):
        init_file = tmp_path / f"store-{uuid.uuid4().hex}"
        spawn(
            _bootstrap,
            args=(world_size, f"file://{init_file}", worker, args),
            nprocs=world_size,
            join=True
        )
    return _launch
