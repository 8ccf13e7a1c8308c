"""core/ -- Kernel shared by every other package: settings, errors, pagination.

Layer rule: core/ imports only stdlib + third-party libraries. Every other
package may import from core/; core/ imports from none of them.
"""
