from .user import User
from .portfolio_item import PortfolioItem
