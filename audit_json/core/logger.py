import logging

logger = logging.getLogger("audit_json")
if not logger.handlers:
    logger.setLevel(logging.INFO)
    handler = logging.StreamHandler()
    formatter = logging.Formatter("%(asctime)s | %(levelname)s | audit_json | %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)

# Sous-loggers : résultats de capture et opérations attach/detach
capture_logger = logging.getLogger("audit_json.capture")
attach_logger = logging.getLogger("audit_json.attach")
