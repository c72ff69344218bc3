"""Fixed template tables used when extracted text carries no usable content

Two tables exist and are selected by trigger condition:

* ``DOCUMENT_TYPE_TEMPLATES`` is used when there is no text signal at all
  (blank text or the manual-entry prompt). Entries are keyed by document type.
* ``GENERIC_TEMPLATES`` is appended by the last heuristic pass when text is
  present but looks corrupt. Each entry is tagged ``needs-editing``.
"""

TEMPLATE_CONFIDENCE = 0.7
GENERIC_TEMPLATE_CONFIDENCE = 0.4
GENERIC_TEMPLATE_SECTION = "Template - Edit Required"
NEEDS_EDITING_TAG = "needs-editing"


DOCUMENT_TYPE_TEMPLATES = {
    'terms': [
        {
            'title': 'Account Registration Terms',
            'content': 'Users must provide accurate information when creating an account. '
                       'False information may result in account suspension.',
            'subcategory': 'Account Management',
            'tags': ['registration', 'account', 'requirements'],
            'keywords': ['account', 'registration', 'information', 'accurate'],
            'priority': 8
        },
        {
            'title': 'Service Usage Restrictions',
            'content': 'Users agree not to misuse the service or engage in prohibited activities '
                       'as outlined in our terms.',
            'subcategory': 'Usage Guidelines',
            'tags': ['usage', 'restrictions', 'prohibited'],
            'keywords': ['service', 'usage', 'restrictions', 'prohibited'],
            'priority': 9
        },
        {
            'title': 'Payment and Billing Terms',
            'content': 'All payments are processed securely. Billing occurs monthly unless otherwise specified.',
            'subcategory': 'Financial Terms',
            'tags': ['payment', 'billing', 'financial'],
            'keywords': ['payment', 'billing', 'monthly', 'secure'],
            'priority': 7
        }
    ],
    'policy': [
        {
            'title': 'Data Collection Policy',
            'content': 'We collect minimal data necessary for service operation and user experience improvement.',
            'subcategory': 'Data Privacy',
            'tags': ['data', 'collection', 'privacy'],
            'keywords': ['data', 'collection', 'privacy', 'minimal'],
            'priority': 9
        },
        {
            'title': 'Information Sharing Guidelines',
            'content': 'Personal information is never shared with third parties without explicit consent.',
            'subcategory': 'Data Sharing',
            'tags': ['sharing', 'consent', 'third-party'],
            'keywords': ['information', 'sharing', 'consent', 'third-party'],
            'priority': 8
        }
    ],
    'manual': [
        {
            'title': 'Getting Started Guide',
            'content': 'Follow these initial steps to set up and begin using the service effectively.',
            'subcategory': 'Setup Instructions',
            'tags': ['setup', 'getting-started', 'guide'],
            'keywords': ['setup', 'getting-started', 'initial', 'steps'],
            'priority': 10
        },
        {
            'title': 'Feature Overview',
            'content': 'Comprehensive overview of available features and their intended usage.',
            'subcategory': 'Features',
            'tags': ['features', 'overview', 'usage'],
            'keywords': ['features', 'overview', 'comprehensive', 'usage'],
            'priority': 7
        }
    ],
    'faq': [
        {
            'title': 'Common Questions',
            'content': 'Answers to the most frequently asked questions about our service.',
            'subcategory': 'General FAQ',
            'tags': ['faq', 'common', 'questions'],
            'keywords': ['questions', 'answers', 'frequently', 'common'],
            'priority': 6
        }
    ],
    'procedures': [
        {
            'title': 'Standard Operating Procedure',
            'content': 'Step-by-step procedure for standard operations and processes.',
            'subcategory': 'Operations',
            'tags': ['procedure', 'operations', 'process'],
            'keywords': ['procedure', 'standard', 'operations', 'process'],
            'priority': 8
        }
    ]
}


GENERIC_TEMPLATES = [
    {
        'title': 'Return Policy',
        'content': 'Please edit with your actual return policy. Include timeframes, conditions, '
                   'and process for returns.',
        'category': 'Shipping & Returns',
        'tags': ['returns', 'policy', NEEDS_EDITING_TAG]
    },
    {
        'title': 'Shipping Information',
        'content': 'Please edit with your shipping details. Include costs, timeframes, '
                   'and available shipping methods.',
        'category': 'Shipping & Returns',
        'tags': ['shipping', 'delivery', NEEDS_EDITING_TAG]
    },
    {
        'title': 'Payment Terms',
        'content': 'Please edit with your payment terms. Include accepted payment methods, '
                   'processing times, and billing policies.',
        'category': 'Company Policies',
        'tags': ['payment', 'billing', NEEDS_EDITING_TAG]
    },
    {
        'title': 'Refund Policy',
        'content': 'Please edit with your refund policy. Include conditions for refunds, '
                   'processing times, and refund methods.',
        'category': 'Company Policies',
        'tags': ['refunds', 'money-back', NEEDS_EDITING_TAG]
    },
    {
        'title': 'Customer Support',
        'content': 'Please edit with your customer support information. Include contact methods, '
                   'hours, and response times.',
        'category': 'Technical Support',
        'tags': ['support', 'contact', NEEDS_EDITING_TAG]
    },
    {
        'title': 'Warranty Information',
        'content': "Please edit with your warranty terms. Include coverage period, what's covered, "
                   "and claim process.",
        'category': 'Product Information',
        'tags': ['warranty', 'coverage', NEEDS_EDITING_TAG]
    },
    {
        'title': 'Terms of Service',
        'content': 'Please edit with your terms of service. Include user responsibilities, '
                   'service limitations, and legal terms.',
        'category': 'Terms & Conditions',
        'tags': ['terms', 'service', NEEDS_EDITING_TAG]
    },
    {
        'title': 'Privacy Policy',
        'content': 'Please edit with your privacy policy. Include data collection, usage, '
                   'and protection information.',
        'category': 'Company Policies',
        'tags': ['privacy', 'data', NEEDS_EDITING_TAG]
    },
    {
        'title': 'Cancellation Policy',
        'content': 'Please edit with your cancellation policy. Include when cancellations are allowed '
                   'and the process.',
        'category': 'Company Policies',
        'tags': ['cancellation', 'orders', NEEDS_EDITING_TAG]
    },
    {
        'title': 'Product Quality Standards',
        'content': 'Please edit with your product quality information. Include standards, testing, '
                   'and quality assurance details.',
        'category': 'Product Information',
        'tags': ['quality', 'standards', NEEDS_EDITING_TAG]
    }
]


def templates_for_document_type(document_type: str) -> list:
    """Return the template table for a document type, defaulting to terms"""
    return DOCUMENT_TYPE_TEMPLATES.get(document_type, DOCUMENT_TYPE_TEMPLATES['terms'])
