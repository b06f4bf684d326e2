import pytest

from mips_sim.main import app, session


@pytest.fixture
def client():
    app.config['TESTING'] = True
    session['sim'] = None
    with app.test_client() as client:
        yield client
    session['sim'] = None
