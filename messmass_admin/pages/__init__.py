from .categories import CategoriesPage
from .charts import ChartsPage
from .events import EventsPage
from .styles import StylesPage
from .users import UsersPage
from .variables import VariablesPage

__all__ = ["CategoriesPage", "ChartsPage", "EventsPage", "StylesPage", "UsersPage", "VariablesPage"]
