# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

__version__ = "0.3.0"
