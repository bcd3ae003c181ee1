from gatesim.models.user import User
from gatesim.models.order import Order
from gatesim.models.invoice import Invoice
from gatesim.models.setting import Setting
