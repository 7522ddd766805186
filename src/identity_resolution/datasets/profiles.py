from __future__ import annotations

from identity_resolution.schema import CrossrefColumn, FieldTag, RecordSchema

KEAP_SOURCE = "keap"
DONOR_DIRECT_SOURCE = "donor_direct"
GIVEBUTTER_SOURCE = "givebutter"
STRIPE_SOURCE = "stripe"

KEAP_REF_PREFIX = "keap:contact:"
DONOR_DIRECT_REF_PREFIX = "dd:account:"

# CRM contact export.
KEAP_SCHEMA = RecordSchema.from_mapping(
    KEAP_SOURCE,
    {
        FieldTag.SOURCE_REF: ["Id"],
        FieldTag.FIRST_NAME: ["FirstName"],
        FieldTag.LAST_NAME: ["LastName"],
        FieldTag.EMAIL: ["Email"],
        FieldTag.EMAIL2: ["EmailAddress2"],
        FieldTag.EMAIL3: ["EmailAddress3"],
        FieldTag.PHONE: ["Phone1"],
        FieldTag.PHONE2: ["Phone2"],
        FieldTag.PHONE3: ["Phone3"],
        FieldTag.ADDRESS_LINE1: ["StreetAddress1"],
        FieldTag.ADDRESS_LINE2: ["StreetAddress2"],
        FieldTag.CITY: ["City"],
        FieldTag.STATE: ["State"],
        FieldTag.ZIP: ["PostalCode"],
        FieldTag.COUNTRY: ["Country"],
        FieldTag.COMPANY: ["Company"],
    },
    source_ref_prefix=KEAP_REF_PREFIX,
)

# Donor management accounts, already joined with their email/phone/address exports.
DONOR_DIRECT_SCHEMA = RecordSchema.from_mapping(
    DONOR_DIRECT_SOURCE,
    {
        FieldTag.SOURCE_REF: ["AccountNumber", "Account Number"],
        FieldTag.FIRST_NAME: ["FirstName", "First Name"],
        FieldTag.LAST_NAME: ["LastName", "Last Name"],
        FieldTag.EMAIL: ["EmailAddress", "Email Address", "Email"],
        FieldTag.PHONE: ["PhoneNumber", "Phone Number", "Phone"],
        FieldTag.ADDRESS_LINE1: ["AddressLine1", "Address Line 1"],
        FieldTag.ADDRESS_LINE2: ["AddressLine2", "Address Line 2"],
        FieldTag.CITY: ["City"],
        FieldTag.STATE: ["State"],
        FieldTag.ZIP: ["ZipPostal", "Zip", "Postal Code"],
        FieldTag.COUNTRY: ["Country"],
        FieldTag.COMPANY: ["OrganizationName", "Organization Name"],
    },
    source_ref_prefix=DONOR_DIRECT_REF_PREFIX,
)

# Donation platform contacts; the CRM and donor numbers point back at those systems.
GIVEBUTTER_SCHEMA = RecordSchema.from_mapping(
    GIVEBUTTER_SOURCE,
    {
        FieldTag.SOURCE_REF: ["Givebutter Contact ID", "Contact ID", "id"],
        FieldTag.FIRST_NAME: ["First Name"],
        FieldTag.LAST_NAME: ["Last Name"],
        FieldTag.EMAIL: ["Primary Email", "Email"],
        FieldTag.PHONE: ["Primary Phone", "Phone"],
        FieldTag.ADDRESS_LINE1: ["Address Line 1"],
        FieldTag.ADDRESS_LINE2: ["Address Line 2"],
        FieldTag.CITY: ["City"],
        FieldTag.STATE: ["State"],
        FieldTag.ZIP: ["Zip Code", "Zip"],
        FieldTag.COUNTRY: ["Country"],
        FieldTag.COMPANY: ["Employer"],
    },
    source_ref_prefix="givebutter:contact:",
    crossrefs=[
        CrossrefColumn("Keap Number", KEAP_SOURCE, KEAP_REF_PREFIX),
        CrossrefColumn("DD Number", DONOR_DIRECT_SOURCE, DONOR_DIRECT_REF_PREFIX),
    ],
)

# Payment processor customers; one name column only.
STRIPE_SCHEMA = RecordSchema.from_mapping(
    STRIPE_SOURCE,
    {
        FieldTag.SOURCE_REF: ["id"],
        FieldTag.DISPLAY_NAME: ["name", "Name"],
        FieldTag.EMAIL: ["email", "Email"],
        FieldTag.PHONE: ["phone"],
        FieldTag.ADDRESS_LINE1: ["address_line1"],
        FieldTag.ADDRESS_LINE2: ["address_line2"],
        FieldTag.CITY: ["address_city"],
        FieldTag.STATE: ["address_state"],
        FieldTag.ZIP: ["address_postal_code"],
        FieldTag.COUNTRY: ["address_country"],
    },
    source_ref_prefix="stripe:customer:",
)

SOURCE_SCHEMAS: dict[str, RecordSchema] = {
    schema.source_id: schema
    for schema in (KEAP_SCHEMA, DONOR_DIRECT_SCHEMA, GIVEBUTTER_SCHEMA, STRIPE_SCHEMA)
}
