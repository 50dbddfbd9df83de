# arrivals/services/__init__.py
