# remote_runnable/core/__init__.py
# SPDX-License-Identifier: Apache-2.0

"""Cross-cutting infrastructure shared by the client modules."""
