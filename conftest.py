import os
import pytest

from circulation import Library

@pytest.fixture
def db_file(tmp_path, request):
    # A separate database file for every test
    return str(tmp_path / f"test_{request.node.name}.db")

@pytest.fixture
def lib(db_file):
    lib = Library(db_file=db_file)
    yield lib
    lib.close()
    if os.path.exists(db_file):
        os.remove(db_file)
