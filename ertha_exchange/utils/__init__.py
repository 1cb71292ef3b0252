# This file marks "utils" as a subpackage of "ertha_exchange"
from .security import hash_password, verify_password, create_access_token, decode_token
