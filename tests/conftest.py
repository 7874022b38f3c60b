import pytest
import typedlite
from sqlalchemy.dialects import registry

registry.register("typedlite", "typedlite_sqlalchemy.dialect", "TypedLiteDialect")
registry.register("sqlite.typedlite", "typedlite_sqlalchemy.dialect", "TypedLiteDialect")

@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "test.db")

@pytest.fixture
def conn(db_path):
    c = typedlite.connect(db_path)
    yield c
    if c.is_open:
        c.close()
