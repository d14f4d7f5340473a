"""
Módulo de Notas de Recepción de Mercancía (GRN)

Registro de mercancía recibida de proveedores, con numeración
GRN-<año>-<consecutivo> por tienda y pagos a crédito del proveedor.
"""
