import time

__version__ = "1.0.0"

StartTime = time.time()
