"""Well-known test account addresses."""

from decimal import Decimal

VAULT = "0xvault"
OWNER = "0xowner"
KEEPER = "0xkeeper"
ADMIN = "0xadmin"
FEES = "0xfees"
ALICE = "0xalice"
BOB = "0xbob"

STARTING_BALANCE = Decimal("1000000")
