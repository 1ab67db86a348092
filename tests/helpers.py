from datetime import datetime

# Tuesday; fixed "now" for engine tests
NOW = datetime(2030, 1, 1, 9, 0)

ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]
