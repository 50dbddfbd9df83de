# arrivals/core/__init__.py
