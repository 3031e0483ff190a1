# SPDX-License-Identifier: MIT
"""Integration tests for dashboard-sync.

INTEGRATION TEST FILE: This directory contains tests that drive a whole
DashboardSession with only the HTTP transport replaced.
"""
