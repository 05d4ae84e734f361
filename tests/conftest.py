import os
import sys
import tempfile

import pytest
from sqlmodel import Session

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from board_models import Client, User, UserRole, make_engine
import board_structure


@pytest.fixture(scope="function")
def temp_db():
    """Create a temporary database for testing"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as temp_file:
        temp_db_path = temp_file.name

    test_engine = make_engine(f"sqlite:///{temp_db_path}")
    try:
        yield test_engine
    finally:
        test_engine.dispose()
        try:
            os.unlink(temp_db_path)
        except OSError:
            pass


@pytest.fixture(scope="function")
def board_data(temp_db):
    """
    Two admins, two client users, one customer and two tab groups:

        Production: New (default tab), Sewing
        Delivery:   Review, Shipping

    plus a personal tab owned by admin-1 that sits outside every group.
    """
    ids = {}
    with Session(temp_db) as session:
        session.add(User(id="admin-1", name="Anna", role=UserRole.ADMIN))
        session.add(User(id="admin-2", name="Bruno", role=UserRole.ADMIN))
        session.add(User(id="client-1", name="Clara", role=UserRole.CLIENT))
        session.add(User(id="client-2", name="Dita", role=UserRole.CLIENT))
        customer = Client(name="Riga Rowing Club", email="club@example.com")
        session.add(customer)
        session.commit()
        session.refresh(customer)
        ids["customer"] = customer.id

        production = board_structure.create_group(session, {"lv": "Ražošana", "en": "Production"})
        delivery = board_structure.create_group(session, {"lv": "Piegāde", "en": "Delivery"}, color="#00875A")
        ids["production"] = production.id
        ids["delivery"] = delivery.id

        ids["new"] = board_structure.create_tab(session, {"lv": "Jauni", "en": "New"}, group_id=production.id).id
        ids["sewing"] = board_structure.create_tab(session, {"lv": "Šūšana", "en": "Sewing"}, color="#FF5630", group_id=production.id).id
        ids["review"] = board_structure.create_tab(session, {"lv": "Pārbaude", "en": "Review"}, group_id=delivery.id).id
        ids["shipping"] = board_structure.create_tab(session, {"lv": "Sūtīšana", "en": "Shipping"}, group_id=delivery.id).id
        ids["personal"] = board_structure.create_tab(session, {"lv": "Mani", "en": "Mine"}, owner_id="admin-1").id
    return ids
