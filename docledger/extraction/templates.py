"""Type-specific extraction rubrics.

Each document type gets its own instructions; all of them are wrapped in
the common rubric that fixes the JSON shape, the currency rules and the
amount rules.
"""

from docledger.classification.schema import DocumentType

EXTRACTION_TEMPLATES: dict[DocumentType, str] = {
    DocumentType.INVOICE: """You are extracting data from a supplier INVOICE.

An invoice is a formal payment demand sent BEFORE payment.

EXTRACT:
1. SUPPLIER: company name (top of page or letterhead); organisation number
   (556xxx-xxxx) for Swedish companies. Foreign companies have no Swedish org number.
2. INVOICE NUMBER: "Fakturanr", "Faktura nr", "Invoice no", "Invoice #".
3. DATES: invoice date, and due date ("Förfaller", "Betalas senast", "Due date").
4. PAYMENT DETAILS: Bankgiro (BG), Plusgiro (PG), OCR/reference number;
   international invoices: IBAN, SWIFT.
5. CURRENCY: the symbol printed next to the amounts ($, €, £, kr, SEK, USD, EUR, GBP).
   NEVER assume SEK for a foreign supplier.
6. AMOUNTS: net amount (excl. VAT), VAT amount and rate, total (incl. VAT).
7. INVOICE LINES: every row with description, quantity, unit price and amount.""",
    DocumentType.RECEIPT: """You are extracting data from a RECEIPT (payment confirmation).

1. SUPPLIER NAME: the shop/restaurant name at the TOP of the receipt, not the receipt
   number, terminal id or org number. Examples: "Espresso House", "Circle K", "ICA Maxi".
2. TOTAL: "TOTAL", "Summa", "Att betala", "Tot". On restaurant receipts the total is
   often printed BEFORE the VAT line. Return a NUMBER (144.00, not "144 kr").
3. VAT: "Moms", "VAT", percentages. Food/restaurant usually 12%, books 6%, other 25%.
4. DATE: receipts often show date AND time ("2024-01-15 14:32"); return only the date.
5. PAYMENT METHOD: "Kort", "VISA", "Mastercard" -> "card"; "Kontant", "Cash" -> "cash";
   "Swish" -> "swish". Masked card "****1234" -> cardLastFour "1234".
6. RECEIPT LINES: the items bought.
7. SEVERAL RECEIPTS: if the image holds several, extract ONLY the left/top one.

EXAMPLE - restaurant receipt:
"Villa Romana"                       <- supplier
"1 x Pasta Carbonara  145,00"
"1 x Coca-Cola         39,00"
"TOTAL                184,00"        <- totalAmount
"Moms 12%              19,71"        <- vatAmount
"VISA ****4521"                      <- paymentMethod "card", cardLastFour "4521"
"2024-03-23 19:45"                   <- documentDate""",
    DocumentType.BANK_STATEMENT: """You are extracting data from a BANK STATEMENT. Focus on:
- Bank name (use it as supplier)
- Account number
- Period (from-to dates)
- Opening and closing balance
- All transactions with date, description and amount (as lineItems)""",
    DocumentType.CREDIT_NOTE: """You are extracting data from a CREDIT NOTE. Focus on:
- Supplier name
- Credit note number
- Date
- Reference to the original invoice
- Credited amount
- VAT""",
    DocumentType.SALARY_SLIP: """You are extracting data from a SALARY SLIP (lönespecifikation).
- Employer name (use it as supplier)
- Pay date (use it as documentDate)
- Gross salary ("Bruttolön") as totalAmount, net pay ("Nettolön", "Att utbetala") as netAmount
- Every earning row (as lineItems)
- A salary slip carries no VAT: use 0 for vatAmount""",
    DocumentType.REMINDER: """You are extracting data from a PAYMENT REMINDER. Focus on:
- Supplier name
- Original invoice number
- Original amount
- Reminder fee
- New total amount
- New due date""",
    DocumentType.CONTRACT: """You are extracting data from a CONTRACT. Focus on:
- The contracting parties
- Contract date
- Contract period
- Amounts (if relevant)
- Payment terms""",
    DocumentType.OTHER: """Extract all relevant financial information you can find:
- Any amounts
- Dates
- Parties/company names
- Reference numbers""",
}

COMMON_RUBRIC = """You are an expert at reading Swedish bookkeeping source documents.

{template}

CRITICAL RULES:
1. SUPPLIER NAME: read EXACTLY what is printed at the TOP of the document. Never guess.
2. TOTAL: find the line with "Total", "Summa" or "Att betala". Give it as a NUMBER.
3. SEVERAL DOCUMENTS: if several are visible, extract ONLY the left/top one.
4. DATES: convert to YYYY-MM-DD ("23 mar 22" -> "2022-03-23").
5. VAT: restaurants usually 12%, everything else usually 25%.

CURRENCY:
- USD: "$", "USD", "US$", "dollar". US companies (Anthropic, OpenAI, Google, AWS, Stripe) bill in USD.
- EUR: "€", "EUR", "euro"
- GBP: "£", "GBP", "pound"
- SEK: "kr", "SEK", ":-", "kronor"
- DKK: "DKK"; NOK: "NOK"
Look FIRST at the symbol beside the amounts, then at the supplier's country.
Assume SEK ONLY for a Swedish company with a Swedish address.

AMOUNTS:
- Always numbers, never strings: "144,00" -> 144.00, "1 234,56" -> 1234.56
- If you cannot find an amount, use 0 and a low extractionConfidence
{ocr_section}
Answer ONLY with JSON (all amounts as numbers):
{{
  "supplier": "name printed at the top",
  "supplierOrgNumber": "556xxx-xxxx or null",
  "supplierCountry": "country or null",
  "supplierVatId": "VAT id (SE123..., DE123...) or null",
  "documentNumber": "document number if present",
  "documentDate": "YYYY-MM-DD",
  "currency": "SEK | EUR | USD | DKK | NOK | GBP",
  "detectedCurrencySymbol": "exact symbol/text you saw (e.g. '€', 'kr', '$')",
  "totalAmount": 144.00,
  "netAmount": 115.20,
  "vatAmount": 28.80,
  "vatRate": 25,
  "dueDate": null,
  "paymentReference": null,
  "bankgiro": null,
  "plusgiro": null,
  "paymentMethod": "card | cash | swish | invoice | other",
  "cardLastFour": "1234 or null",
  "lineItems": [
    {{
      "description": "item or service",
      "quantity": 1,
      "unitPrice": 144.00,
      "netAmount": 115.20,
      "vatRate": 25,
      "vatAmount": 28.80
    }}
  ],
  "rawTextSummary": "short description of what the document is for",
  "extractionConfidence": 0.85,
  "multipleDocumentsDetected": false
}}"""


def build_extraction_prompt(document_type: DocumentType, ocr_text: str = "") -> str:
    """Build the extraction prompt for a document type.

    Args:
        document_type: Classified document type
        ocr_text: Supplementary OCR text (already truncated), may be empty

    Returns:
        Complete prompt
    """
    template = EXTRACTION_TEMPLATES.get(document_type, EXTRACTION_TEMPLATES[DocumentType.OTHER])
    ocr_section = f"\nSUPPLEMENTARY OCR TEXT:\n{ocr_text}\n" if ocr_text else ""
    return COMMON_RUBRIC.format(template=template, ocr_section=ocr_section)
