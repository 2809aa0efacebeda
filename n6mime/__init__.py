# Copyright (c) 2013-2026 NASK. All rights reserved.

from n6mime.log_helpers import early_Formatter_class_monkeypatching

# Monkey-patch logging.Formatter to use UTC time.
early_Formatter_class_monkeypatching()
