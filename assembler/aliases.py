"""Field aliases used by the ERP feeds, in priority order.

The sales feed (GenerarInfoVentas), the receivables feed
(EstadoDeCuentaCartera) and the customer listing (ListadoClientes) name the
same logical field differently; lookups are case-insensitive.
"""

# Sales
INVOICE_PREFIX = ["prefijo", "prefij", "prefac"]
INVOICE_NUMDOC = ["numdoc", "numero", "documento", "docafe"]
INVOICE_ID = ["docafe", "factura", "nofactura", "numero", "documento", "idfactura", "nrodocumento"]
INVOICE_NIT = ["cedula", "nit", "documentocliente", "idcliente", "nitcliente"]
INVOICE_CUSTOMER_NAME = ["nomced", "cliente", "nombre", "razonsocial"]
INVOICE_DATE = ["fecha", "fechafac", "fechafactura", "fechaemision", "fecfac"]
INVOICE_TOTAL = ["valtot", "total", "valortotal", "valor", "vrtotal", "totalfactura"]
LINE_MARGIN = ["valuti", "margen", "utilidad", "vrmargen"]
LINE_QUANTITY = ["cantid", "cantidad", "unidades", "cant", "qty"]
LINE_REFERENCE = ["refer", "referencia", "codigo", "codref"]
LINE_PRODUCT_NAME = ["nomref", "producto", "nombreproducto", "articulo", "descripcion"]
LINE_CATEGORY = ["nomsec", "categoria", "linea", "grupo", "codsec"]
LINE_UNIT_PRICE = ["valund", "valorunitario", "precio", "vr_unitario", "preciounitario"]
LINE_TOTAL = ["valtot", "totalitem", "subtotal", "valoritem", "totaldetalle"]
INVOICE_VENDOR = ["nomven", "nomvendedor", "vendedor", "cli_nomven", "vended"]

# Receivables
PAYMENT_NIT = ["cedula", "nit", "documentocliente", "nitcliente"]
PAYMENT_CUSTOMER_NAME = ["nomced", "cliente", "nombre", "razonsocial"]
PAYMENT_DATE = ["ultpag", "fecha", "fechapago", "fecpago"]
PAYMENT_AMOUNT = ["valor", "abono", "pago", "valorpago", "vrpago"]
PAYMENT_BALANCE = ["saldo"]
PAYMENT_DUE_DATE = ["fecven", "fechaven", "fechavenc"]
PAYMENT_OVERDUE_DAYS = ["daiaven"]
PAYMENT_PREFIX = ["prefij", "prefijo"]
PAYMENT_INVOICE_ID = ["numdoc", "factura", "nofactura", "idfactura"]
PAYMENT_EXTERNAL_ID = ["numdoc", "prefij", "recibo", "documento", "id", "numero"]
CREDIT_LIMIT = [
    "cli_cupcre", "cupcre", "cupo", "cupocredito", "credito", "creditlimit", "cupo_credito", "limite",
]

# Customer listing
CUSTOMER_ACTIVE = ["cli_activo", "activo", "active"]
CUSTOMER_NIT = ["cli_cedula", "nit", "cedula", "documento", "idcliente"]
CUSTOMER_NAME = ["cli_nombre", "nombre", "razonsocial", "cliente", "nomcliente", "nombres"]
CUSTOMER_EXTERNAL_ID = ["id", "codigo", "codcliente"]
CUSTOMER_EMAIL = ["cli_email", "email", "correo"]
CUSTOMER_PHONE = ["cli_telefo", "cli_telcel", "telefono", "celular", "movil"]
CUSTOMER_ADDRESS = ["cli_direcc", "direccion"]
CUSTOMER_CITY = [
    "cli_nomciu", "cli_ciudad", "nomciu", "nomciudad", "ciudad", "municipio", "codciu",
    "departamento", "nom_departamento", "region", "ciudade", "NOMSEC", "nomsec",
]
CUSTOMER_SEGMENT = ["cli_nomsec", "cli_sector", "nomsec", "sector"]
CUSTOMER_VENDOR = ["cli_nomven", "nomven", "vendedor", "cli_vended", "vended"]
