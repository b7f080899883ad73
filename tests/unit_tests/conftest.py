import os

import pytest


@pytest.fixture
def fastq(tmp_path):
    """Factory of empty read files"""
    def make(name: str) -> str:
        path = os.path.join(tmp_path, name)
        open(path, 'w').close()
        return path
    return make
