# SPDX-License-Identifier: MIT
"""Small helpers shared across the package."""
