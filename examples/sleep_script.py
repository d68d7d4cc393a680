# Sleeps for a random 0-5000 ms to simulate a variable runtime, then reports.
# Expects a `text` parameter, e.g. `scriptpool parallel examples/sleep_script.py`.
import random
import time

ms = random.randint(0, 5000)
time.sleep(ms / 1000)
emit(f"{text} | Slept: {ms} ms")
