"""
Módulo de Clientes

Clientes de cada tienda (tenant). Las facturas referencian un cliente
opcional; una factura sin cliente es una venta de mostrador (walk-in).
"""
